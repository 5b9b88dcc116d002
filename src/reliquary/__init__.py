"""
reliquary — command-line front end for the Reliquary mod manager.

Installs Bethesda-game mods from archives into a workspace, projects their
plugins into a virtual Data folder and sorts / reports on them through LOOT.
"""

__version__ = "0.3.0"
