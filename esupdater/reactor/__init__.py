"""
The reactor: what happens when an event arrives.

The modules go from the lowest level (namespaces, matching, updating)
to the highest level (handling of the whole batch, running the process).
"""
