import sys

from chopper.main import main

# argv[0] is this file under `python -m chopper`; treat it as direct mode
sys.exit(main(["chopper", *sys.argv[1:]]))
