import sys

from wiremail.cli import main

sys.exit(main())
