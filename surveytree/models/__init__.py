"""
Models for surveytree.

Includes:
- base_model: Abstract base class the tuner fits through
- tree_model: CART regression tree with cost-complexity pruning
"""
