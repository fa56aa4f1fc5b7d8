import sys

from .main import module_main

sys.exit(module_main())
