import sys

from lightpath.cli import main

sys.exit(main())
