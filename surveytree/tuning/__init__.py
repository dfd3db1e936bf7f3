"""
Hyperparameter tuning modules.

Includes:
- grid: Regular grids over the tree's hyperparameters
- grid_tuner: Parallel grid search over bootstrap resamples
- results: Fit results and the tuning table
- selection: Best grid point, with an optional one-standard-error rule
- cache: On-disk cache of tuning tables
"""
