"""Physical process modules of the land-surface core.

Each module holds the physics of one process and operates on plain floats,
numpy arrays and the state containers of ``pyvic.state``; none of them knows
about cells, regimes or elevation bands.
"""
