# Sentinel distinguishing "not provided" from an explicit null in updates.
UNSET = object()
