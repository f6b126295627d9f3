"""
Self-describing parameter schema for the proxy's user-facing settings.

Each Parameter carries its display name, description, declared type and a
typed default. Defaults are a tagged variant over ParameterType, resolved when
the schema is built, so callers never have to check what kind of value a
default holds.
"""

from enum import Enum
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from pow_proxy.utils.config import Settings

UINT16_MAX = 65535


class ParameterType(str, Enum):
    """Declared data type of a parameter's value."""

    INT = "int"
    UINT16 = "uint16"
    STRING = "string"
    BOOL = "bool"
    CHOICE = "choice"


class ContainerID(str, Enum):
    """Containers that must be restarted when a parameter changes."""

    API = "api"
    NODE = "node"
    WATCHTOWER = "watchtower"
    ETH1 = "eth1"
    ETH2 = "eth2"
    VALIDATOR = "validator"


class ParameterError(ValueError):
    """Raised when a raw value does not fit its parameter's declared type."""

    def __init__(self, parameter_id: str, message: str):
        self.parameter_id = parameter_id
        super().__init__(f"{parameter_id}: {message}")


class IntValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ParameterType.INT] = ParameterType.INT
    value: int


class Uint16Value(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ParameterType.UINT16] = ParameterType.UINT16
    value: int = Field(ge=0, le=UINT16_MAX)


class StringValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ParameterType.STRING] = ParameterType.STRING
    value: str


class BoolValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ParameterType.BOOL] = ParameterType.BOOL
    value: bool


class ChoiceValue(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal[ParameterType.CHOICE] = ParameterType.CHOICE
    value: str


ParameterValue = Annotated[
    IntValue | Uint16Value | StringValue | BoolValue | ChoiceValue,
    Field(discriminator="type"),
]

_TRUE_STRINGS = ("true", "1", "yes", "on")
_FALSE_STRINGS = ("false", "0", "no", "off")


class Parameter(BaseModel):
    """A named, typed, described configuration value with a default."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    default: ParameterValue
    options: tuple[str, ...] = ()
    environment_variables: tuple[str, ...] = ()
    affects_containers: tuple[ContainerID, ...] = ()
    can_be_blank: bool = False
    overwrite_on_upgrade: bool = False

    @property
    def type(self) -> ParameterType:
        return self.default.type

    @model_validator(mode="after")
    def _check_choice_default(self) -> "Parameter":
        if self.type == ParameterType.CHOICE:
            if not self.options:
                raise ValueError(f"choice parameter {self.id} declares no options")
            if self.default.value not in self.options and not (
                self.can_be_blank and self.default.value == ""
            ):
                raise ValueError(f"default {self.default.value!r} is not an option of {self.id}")
        return self

    def parse(self, raw: str | int | bool) -> ParameterValue:
        """Convert a raw value into this parameter's typed value.

        Raises:
            ParameterError: If the value is blank where not allowed, cannot be
                converted, or falls outside the allowed range/options.
        """
        if isinstance(raw, str):
            raw = raw.strip()
            if raw == "":
                if not self.can_be_blank:
                    raise ParameterError(self.id, "value cannot be blank")
                if self.type in (ParameterType.STRING, ParameterType.CHOICE):
                    return self.default.model_copy(update={"value": ""})
                return self.default

        kind = self.type
        if kind == ParameterType.STRING:
            return StringValue(value=str(raw))

        if kind == ParameterType.CHOICE:
            value = str(raw)
            if value not in self.options:
                raise ParameterError(
                    self.id, f"{value!r} is not one of {', '.join(self.options)}"
                )
            return ChoiceValue(value=value)

        if kind == ParameterType.BOOL:
            if isinstance(raw, bool):
                return BoolValue(value=raw)
            lowered = str(raw).lower()
            if lowered in _TRUE_STRINGS:
                return BoolValue(value=True)
            if lowered in _FALSE_STRINGS:
                return BoolValue(value=False)
            raise ParameterError(self.id, f"{raw!r} is not a boolean")

        if isinstance(raw, bool):
            raise ParameterError(self.id, "expected a number, got a boolean")
        try:
            number = int(raw)
        except ValueError:
            raise ParameterError(self.id, f"{raw!r} is not an integer") from None

        if kind == ParameterType.UINT16:
            if not 0 <= number <= UINT16_MAX:
                raise ParameterError(self.id, f"{number} is outside 0-{UINT16_MAX}")
            return Uint16Value(value=number)
        return IntValue(value=number)

    def resolve(self, raw: str | int | bool | None) -> "Setting":
        """Resolve a raw value (None means unset) into a Setting."""
        if raw is None:
            return Setting(parameter=self, value=self.default, using_default=True)
        value = self.parse(raw)
        return Setting(parameter=self, value=value, using_default=value == self.default)


class Setting(BaseModel):
    """The value chosen for a parameter."""

    model_config = ConfigDict(frozen=True)

    parameter: Parameter
    value: ParameterValue
    using_default: bool


_PROXY_CONTAINERS = (
    ContainerID.API,
    ContainerID.NODE,
    ContainerID.WATCHTOWER,
    ContainerID.ETH1,
    ContainerID.ETH2,
)

PROXY_PARAMETERS: tuple[Parameter, ...] = (
    Parameter(
        id="network",
        name="Network",
        description=(
            "The Ethereum network to use. Selects the hosted endpoint "
            "when no provider URL is set."
        ),
        default=ChoiceValue(value="mainnet"),
        options=("mainnet", "prater", "goerli"),
        affects_containers=_PROXY_CONTAINERS + (ContainerID.VALIDATOR,),
    ),
    Parameter(
        id="projectID",
        name="Project ID",
        description=(
            "The ID of your Ethereum project in Infura. "
            "Note: this is your Project ID, not your Project Secret!"
        ),
        default=StringValue(value=""),
        environment_variables=("INFURA_PROJECT_ID",),
        affects_containers=(ContainerID.ETH1,),
        can_be_blank=True,
    ),
    Parameter(
        id="httpPort",
        name="HTTP Port",
        description="The port the proxy should use for its HTTP RPC endpoint.",
        default=Uint16Value(value=8545),
        environment_variables=("EC_HTTP_PORT",),
        affects_containers=_PROXY_CONTAINERS,
        can_be_blank=True,
    ),
    Parameter(
        id="providerUrl",
        name="Provider URL",
        description=(
            "Explicit JSON-RPC endpoint to forward to. "
            "Leave blank to use the hosted endpoint for the selected network."
        ),
        default=StringValue(value=""),
        affects_containers=(ContainerID.ETH1,),
        can_be_blank=True,
    ),
    Parameter(
        id="wsPort",
        name="Websocket Port",
        description=(
            "The port reserved for a Websocket RPC endpoint. This proxy serves "
            "HTTP only; the value is carried for the containers that expect it."
        ),
        default=Uint16Value(value=8546),
        environment_variables=("EC_WS_PORT",),
        affects_containers=_PROXY_CONTAINERS,
        can_be_blank=True,
    ),
    Parameter(
        id="openRpcPorts",
        name="Open RPC Ports",
        description=(
            "Open the HTTP RPC port to your local network, so other local "
            "machines can access the proxy's RPC endpoint."
        ),
        default=BoolValue(value=False),
        environment_variables=("EC_OPEN_RPC_PORTS",),
        affects_containers=(ContainerID.ETH1,),
    ),
)


def get_parameter(parameter_id: str) -> Parameter:
    """Look up a proxy parameter by id.

    Raises:
        KeyError: If no parameter has that id.
    """
    for parameter in PROXY_PARAMETERS:
        if parameter.id == parameter_id:
            return parameter
    raise KeyError(parameter_id)


def validate_proxy_settings(settings: Settings) -> dict[str, Setting]:
    """Check loaded settings against the parameter schema.

    Network and project id are only checked when no explicit provider URL is
    configured, since they are ignored otherwise.

    Returns:
        Resolved settings keyed by parameter id.

    Raises:
        ParameterError: On the first value that does not fit.
    """
    raw_values: dict[str, str | None] = {
        "httpPort": settings.proxy.port,
        "providerUrl": settings.proxy.provider_url,
    }
    if not settings.proxy.provider_url:
        raw_values["network"] = settings.infura.network
        raw_values["projectID"] = settings.infura.project_id

    return {
        parameter_id: get_parameter(parameter_id).resolve(raw)
        for parameter_id, raw in raw_values.items()
    }


def describe_parameters() -> str:
    """Render the parameter schema as plain text."""
    lines = []
    for parameter in PROXY_PARAMETERS:
        default = parameter.default.value
        lines.append(f"{parameter.name} ({parameter.id}, {parameter.type.value})")
        lines.append(f"    {parameter.description}")
        lines.append(f"    default: {default!r}")
        if parameter.options:
            lines.append(f"    options: {', '.join(parameter.options)}")
        if parameter.environment_variables:
            lines.append(f"    env: {', '.join(parameter.environment_variables)}")
        if parameter.affects_containers:
            containers = ", ".join(c.value for c in parameter.affects_containers)
            lines.append(f"    affects: {containers}")
        if parameter.overwrite_on_upgrade:
            lines.append("    overwritten on upgrade")
    return "\n".join(lines)
