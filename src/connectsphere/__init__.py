"""ConnectSphere — event planning platform backend.

Events, RSVPs, polls and chat, with a fan-out core that pushes every
state change to realtime clients, invalidates cached views, and hands a
typed event to the notification worker over Redis pub/sub.
"""

__version__ = "0.1.0"
