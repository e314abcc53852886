from etch.main import entrypoint

entrypoint()
