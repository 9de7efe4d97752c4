"""
All the data structures: as received from the API or the webhooks,
or as configured by the environment.

The structures have no behaviour beyond their own consistency:
they do not talk to the API and do not sleep.
"""
