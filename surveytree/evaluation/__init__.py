"""
Model evaluation modules.

Includes:
- metrics: Regression metrics (rmse, mae, rsq) with their direction
- final_fit: Refit of the selected grid point and held-out evaluation
"""
