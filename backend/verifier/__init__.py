"""
Answer consensus engine.
Collects the daily answer from several independent sources concurrently,
weighs their votes, and records a candidate or verified Prediction per game number.
"""
