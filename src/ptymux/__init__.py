"""ptymux -- pseudo-terminal session multiplexer.

Spawns interactive terminal programs, one per logical session (tab or
network connection), and relays their raw byte streams to display
surfaces. Sessions can be resized, killed and restarted in place, and
networked clients can submit whole lines of text that are fed to the
program one character at a time.
"""

__version__ = "0.1.0"
