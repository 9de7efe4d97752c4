"""
The engines of the updater: the supporting activities around the request handling.

The engines do not know what the request handling does: they only log in,
format the logs, and report the health of the process to the probes.
"""
