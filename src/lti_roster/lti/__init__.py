"""
PyLTI1p3 integration: framework adapter, tool configuration, launch data
storage, signing keys and the login/launch endpoints.
"""
