import sys

from fabric_live.cli import main

sys.exit(main())
