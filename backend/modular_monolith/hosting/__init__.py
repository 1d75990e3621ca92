"""
Composition-root infrastructure: registry, provider, builder and the shared
service defaults. Import submodules directly; nothing is re-exported here.
"""
