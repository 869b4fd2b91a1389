"""Node Simulator Reconciler.

Keeps a fixed number of fake Node objects in a Kubernetes cluster for every
NodeSimulator custom resource:
 - creates missing nodes and re-applies the template to existing ones
 - deletes nodes beyond the desired count
 - removes every managed node before the NodeSimulator is allowed to go away

Events and per-pass reports are kept in a small sqlite database and exposed
through the HTTP API in ``main.py``.
"""
