"""
TASKMILL identity constants.
"""

__version__ = "0.3.0"
__codename__ = "TASKMILL"
__tagline__ = "Grind the backlog. Hand back a commit."

BANNER = r"""
 _____ _   ___ _  ____  __ ___ _    _
|_   _/_\ / __| |/ /  \/  |_ _| |  | |
  | |/ _ \\__ \ ' <| |\/| || || |__| |__
  |_/_/ \_\___/_|\_\_|  |_|___|____|____|
"""
