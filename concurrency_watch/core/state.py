"""Process-wide watching flag checked by every instrumented container."""

# Read by every thread; mutations from any thread are recorded while this is set.
watching: bool = False


def arm() -> None:
    global watching
    watching = True


def disarm() -> None:
    global watching
    watching = False


def is_watching() -> bool:
    return watching
