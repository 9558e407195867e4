# DocStore CLI Package
# ====================
# Output formatting for the command-line inspector (main.py).

from cli.renderer import Renderer, MODES
