"""Phase timer services.

Everything that reads or advances a game's phase clock lives here: the
expired game finder, the drawing grace window, the transition engine, the
phase-changed broadcaster, the monitoring tick and the timer sync read
path. HTTP routes and socket handlers import from these modules and keep
transport concerns out of them.
"""
