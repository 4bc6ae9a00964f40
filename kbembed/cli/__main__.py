import sys

from kbembed.cli.ingest import main

sys.exit(main())
