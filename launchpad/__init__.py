# -----------------------------------------------------------------------------
# LAUNCHPAD
# -----------------------------------------------------------------------------
# Ephemeral preview environments: one warm container ("rocket") per pull
# request, reachable at its own hostname, recycled after a time budget.
# -----------------------------------------------------------------------------

__version__ = "1.0.0"
