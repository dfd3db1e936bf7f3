"""
Grocery Survey Regression-Tree Tuning

Loads a cleaned grocery-shopping survey, draws stratified bootstrap
resamples, grid-searches a regression tree and refits the selected model.
"""

__version__ = "0.1.0"
__author__ = "surveytree"
