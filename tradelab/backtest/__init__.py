"""Backtesting engine and strategy evaluation tools for TradeLab.
Provides the portfolio rules, run engine, candidate evaluator, parameter grid and batch runner.
"""
