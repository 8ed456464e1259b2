r"""
  ______                       ________          __
 / ____/________  __  ______  / ____/ /_  ____ _/ /_
/ / __/ ___/ __ \/ / / / __ \/ /   / __ \/ __ `/ __/
/ /_/ / /  / /_/ / /_/ / /_/ / /___/ / / / /_/ / /_
\____/_/   \____/\__,_/ .___/\____/_/ /_/\__,_/\__/
                     /_/

GroupChat Project - password-protected group chat relay.

Clients join a named group with a shared password, receive the recent
history of that group and exchange real-time messages with every other
member of the room. Groups are managed through a small admin HTTP API.

License: Apache-2.0 License
"""

__version__ = "1.0.0"
