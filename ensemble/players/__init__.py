"""
Players — the server's playback endpoints as this client sees them.

The server owns the list.  The registry keeps a filtered copy and the
current selection; the state sync keeps the selected player's snapshot
fresh and sends playback commands to it.

Modules:
  models.py      — Player, Track, PlaybackState, RepeatMode snapshots
  registry.py    — PlayerRegistry: fetch, filter, select, notify
  state_sync.py  — PlaybackStateSync: polling, pushed updates, commands
  ghosts.py      — stale/duplicate player detection for the cleanup view
"""
