"""
All the routines to talk to Kubernetes API.

This library is supposed to be mocked when the mocked K8s client is needed,
and only the high-level logic has to be tested, not the API calls themselves.

Beware: this is NOT a Kubernetes client. It is set of dedicated adapters
specially tailored to do the updater-specific tasks, not the generic
Kubernetes object manipulation.

The actual client is ``aiohttp``, authenticated via the credentials vault
(see :mod:`esupdater.clients.auth`).
"""
