"""Reference backend for the expense API.

A small FastAPI application implementing the endpoints the client engine
consumes (expense CRUD, upload signing, object storage).  It is not part of
the synchronization core; it exists so the client can be developed and
tested against a real HTTP server.
"""
