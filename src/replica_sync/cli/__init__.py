"""replica-sync CLI.

Command-line front end over the local replica and the remote document server.

Usage:
    replica-sync login <user>        Sign in as a user
    replica-sync push <file.json>    Save a collection and upload it
    replica-sync pull                Download and merge the remote collection
    replica-sync show                Show the local collection
    replica-sync watch               Follow remote changes as they happen
"""

from replica_sync.cli.main import app, main

__all__ = ["app", "main"]
