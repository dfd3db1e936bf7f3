"""
Survey data handling for surveytree.

Includes:
- dataset: Immutable survey table with a declared schema
- splitter: Stratified train/test split
- resampling: Stratified bootstrap resamples
"""

from .dataset import Dataset
from .splitter import Split, initial_split
from .resampling import Resample, ResampleCollection, bootstraps

__all__ = [
    "Dataset",
    "Split",
    "initial_split",
    "Resample",
    "ResampleCollection",
    "bootstraps",
]
