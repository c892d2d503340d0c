"""Strategy contract, built-in strategies and the strategy selector.

Import concrete strategies from their modules; ``tradelab.strats.registry`` wires
the defaults together.
"""
