import sys

from pow_proxy.main import main

sys.exit(main())
