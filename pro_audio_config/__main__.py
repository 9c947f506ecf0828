# pro_audio_config/__main__.py
# `python -m pro_audio_config` behaves like the installed `pro-audio-config`
# console script; both forward into pro_audio_config.cli.main.

from .cli import main

if __name__ == "__main__":
    import sys
    sys.exit(main())
