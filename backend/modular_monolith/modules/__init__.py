"""
Business modules of the monolith.

Each module lives under `modules/<name>/` and exposes one registration function
(`add_<thing>(services) -> services`) plus, optionally, its own router. Modules
never import each other or the host's composition code; the composition root
(`modular_monolith.main`) wires them in.
"""
