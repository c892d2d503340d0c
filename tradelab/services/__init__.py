"""Application services built on the backtest core."""
