import sys

from agentrelay.cli import main

sys.exit(main())
