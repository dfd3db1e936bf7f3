"""
Tests for the surveytree tuning layer components.

Tests cover grid generation, the tuning table, parallel grid search,
best-model selection and the tuning cache, plus an end-to-end smoke test
on a small survey.
"""

import itertools
import logging
import random

import pytest
import pandas as pd
import numpy as np
from pathlib import Path
import tempfile
import shutil

from surveytree.data.dataset import Dataset
from surveytree.data.example import (
    EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, EXAMPLE_SCHEMA, generate_survey_data
)
from surveytree.data.resampling import bootstraps
from surveytree.data.splitter import initial_split
from surveytree.errors import EmptyTuningTableError, GridError, InsufficientDataError
from surveytree.evaluation.final_fit import fit_final
from surveytree.models.tree_model import RegressionTreeModel
from surveytree.tuning.cache import TuningCache, tuning_cache_key
from surveytree.tuning.grid import (
    COST_COMPLEXITY, MIN_N, Parameter, parameters_from_config, regular_grid
)
from surveytree.tuning.grid_tuner import GridTuner
from surveytree.tuning.results import FitResult, TuningTable
from surveytree.tuning.selection import rank_grid_points, rank_summary, select_best, show_best


class FailingForLargeNodes(RegressionTreeModel):
    """Tree that refuses to fit with min_n = 40."""

    def fit(self, X, y, **kwargs):
        if self.model_params['min_n'] == 40:
            raise RuntimeError("node threshold too large")
        return super().fit(X, y, **kwargs)


def small_grid():
    """2 x 2 grid: (1e-10, 2), (1e-10, 40), (0.1, 2), (0.1, 40)."""
    return regular_grid(levels=2)


def make_table(grid, values_by_index, metric="rmse", errors_by_index=None):
    """Tuning table from per-grid-point lists of resample values."""
    errors_by_index = errors_by_index or {}
    n_resamples = max(len(v) for v in values_by_index.values())
    ids = [f"Bootstrap{i + 1:02d}" for i in range(n_resamples)]

    results = []
    for index, values in values_by_index.items():
        for resample_id, value in zip(ids, values):
            if index in errors_by_index:
                results.append(FitResult(index, resample_id, float("nan"), errors_by_index[index]))
            else:
                results.append(FitResult(index, resample_id, value))
    return TuningTable(grid, metric, results, ids)


class TestGrid:
    """Test regular grid generation."""

    def test_grid_size(self):
        """The grid size is the product of the level counts."""
        assert len(regular_grid(levels=4)) == 16
        assert len(regular_grid(levels={'cost_complexity': 3, 'min_n': 2})) == 6

    def test_exact_cross_product(self):
        """The grid is exactly the cross product of the candidate values."""
        grid = regular_grid(levels=4)
        cc_values = COST_COMPLEXITY.values(4)
        min_n_values = MIN_N.values(4)

        points = [tuple(g.as_dict().values()) for g in grid]

        assert len(set(points)) == len(points)
        assert set(points) == set(itertools.product(cc_values, min_n_values))
        # last parameter varies fastest
        assert points[:4] == [(cc_values[0], m) for m in min_n_values]

    def test_candidate_values(self):
        """cost_complexity is log-spaced, min_n linearly spaced integers."""
        np.testing.assert_allclose(COST_COMPLEXITY.values(4), [1e-10, 1e-7, 1e-4, 1e-1])
        assert MIN_N.values(4) == (2, 15, 27, 40)
        assert all(isinstance(v, int) for v in MIN_N.values(4))

    def test_grid_points(self):
        """Grid points are numbered and addressable by parameter name."""
        grid = regular_grid(levels=4)
        point = grid[5]

        assert point.index == 5
        assert point.config_id == "Model06"
        assert point.names == ('cost_complexity', 'min_n')
        assert point['min_n'] == 15
        assert point.as_dict() == {'cost_complexity': point['cost_complexity'], 'min_n': 15}

        with pytest.raises(KeyError):
            point['max_depth']

    def test_grid_frame(self):
        """The grid renders as a table indexed by grid index."""
        frame = regular_grid(levels=3).to_frame()

        assert len(frame) == 9
        assert list(frame.columns) == ['config_id', 'cost_complexity', 'min_n']
        assert frame.index.name == 'grid_index'

    def test_duplicate_values_raise(self):
        """Integer rounding that repeats a value makes the grid ambiguous."""
        narrow = Parameter("min_n", 2, 4, integer=True)

        with pytest.raises(GridError):
            regular_grid([COST_COMPLEXITY, narrow], levels=5)

    @pytest.mark.parametrize("levels", [0, -2, True])
    def test_invalid_levels(self, levels):
        with pytest.raises(GridError):
            regular_grid(levels=levels)

    def test_parameters_from_config(self):
        """Config ranges override the default ranges."""
        parameters = parameters_from_config({
            'cost_complexity': {'range': [-5, -2], 'transform': 'log10'},
            'min_n': {'range': [5, 20], 'transform': 'identity'},
        })
        grid = regular_grid(parameters, levels=2)

        assert grid[0].as_dict() == {'cost_complexity': pytest.approx(1e-5), 'min_n': 5}
        assert grid[3].as_dict() == {'cost_complexity': pytest.approx(1e-2), 'min_n': 20}

        with pytest.raises(GridError):
            parameters_from_config({'max_depth': {'range': [1, 5], 'transform': 'identity'}})


class TestTuningTable:
    """Test aggregation of fit results."""

    def test_summary_statistics(self):
        """Mean is the plain average; std_err uses the sample standard deviation."""
        grid = small_grid()
        table = make_table(grid, {
            0: [1.0, 2.0, 3.0],
            1: [2.0, 2.0, 2.0],
            2: [4.0, 6.0, 8.0],
            3: [5.0, 5.0, 5.0],
        })
        summary = table.summary

        assert len(table) == 4
        assert table.n_results == 12
        assert summary.loc[0, 'mean'] == pytest.approx(2.0)
        assert summary.loc[0, 'std_err'] == pytest.approx(1.0 / np.sqrt(3))
        assert summary.loc[1, 'std_err'] == pytest.approx(0.0)
        assert summary.loc[2, 'n'] == 3
        assert not summary['excluded'].any()

    def test_order_invariant(self):
        """Shuffling the results leaves the table unchanged."""
        grid = small_grid()
        ids = ["Bootstrap01", "Bootstrap02", "Bootstrap03"]
        results = [
            FitResult(g.index, rid, float(g.index) + 0.1 * i)
            for g in grid for i, rid in enumerate(ids)
        ]
        shuffled = list(results)
        random.Random(0).shuffle(shuffled)

        a = TuningTable(grid, "rmse", results, ids)
        b = TuningTable(grid, "rmse", shuffled, ids)

        pd.testing.assert_frame_equal(a.summary, b.summary)
        pd.testing.assert_frame_equal(a.results, b.results)

    def test_merge_partials(self):
        """Per-worker partial lists combine into one table."""
        grid = small_grid()
        partials = [
            [FitResult(g.index, "Bootstrap01", 1.0) for g in grid],
            [FitResult(g.index, "Bootstrap02", 2.0) for g in grid],
        ]
        table = TuningTable.merge(grid, "rmse", partials, ["Bootstrap01", "Bootstrap02"])

        assert table.n_results == 8
        assert (table.summary['mean'] == 1.5).all()

    def test_partial_failures(self):
        """Failed fits are missing observations; the grid point stays valid."""
        grid = small_grid()
        results = [
            FitResult(0, "Bootstrap01", 1.0),
            FitResult(0, "Bootstrap02", float("nan"), "ValueError: boom"),
            FitResult(0, "Bootstrap03", 3.0),
        ]
        results += [FitResult(i, rid, 1.0) for i in (1, 2, 3)
                    for rid in ("Bootstrap01", "Bootstrap02", "Bootstrap03")]
        table = TuningTable(grid, "rmse", results, ["Bootstrap01", "Bootstrap02", "Bootstrap03"])

        row = table.summary.loc[0]
        assert row['n'] == 2
        assert row['n_failed'] == 1
        assert row['mean'] == pytest.approx(2.0)
        assert not row['excluded']
        assert table.results['error'].notna().sum() == 1

    def test_all_failed_grid_point(self):
        """A grid point with no successful resample is excluded with InsufficientDataError."""
        grid = small_grid()
        table = make_table(
            grid,
            {i: [1.0, 2.0] for i in range(4)},
            errors_by_index={3: "DegenerateTreeError: no splits"},
        )

        assert set(table.failures) == {3}
        assert isinstance(table.failures[3], InsufficientDataError)
        assert "no splits" in str(table.failures[3])
        assert table.summary.loc[3, 'excluded']
        assert np.isnan(table.summary.loc[3, 'mean'])
        assert [g.index for g in table.valid_points()] == [0, 1, 2]

    def test_exclusion_messages(self):
        """Each excluded grid point gets one message naming it and the failure."""
        table = make_table(
            small_grid(),
            {i: [1.0, 2.0] for i in range(4)},
            errors_by_index={3: "DegenerateTreeError: no splits", 1: "RuntimeError: failed"},
        )
        messages = table.exclusion_messages()

        assert len(messages) == 2
        assert messages[0].startswith("Excluding Model02 from selection")
        assert "RuntimeError: failed" in messages[0]
        assert "no splits" in messages[1]

    def test_duplicate_results_raise(self):
        grid = small_grid()
        results = [FitResult(0, "Bootstrap01", 1.0), FitResult(0, "Bootstrap01", 2.0)]

        with pytest.raises(ValueError, match="Duplicate"):
            TuningTable(grid, "rmse", results, ["Bootstrap01"])

    def test_unknown_grid_point_raises(self):
        with pytest.raises(ValueError):
            TuningTable(small_grid(), "rmse", [FitResult(9, "Bootstrap01", 1.0)], ["Bootstrap01"])


class TestSelection:
    """Test best-model selection."""

    @pytest.fixture
    def table(self):
        """Means 10.0, 10.05, 12.0, 10.08; grid point 0 has std_err 0.1."""
        return make_table(small_grid(), {
            0: [9.9, 10.1],
            1: [10.0, 10.1],
            2: [11.0, 13.0],
            3: [9.0, 11.16],
        })

    def test_select_best(self, table):
        """The grid point with the lowest mean is selected."""
        best = select_best(table)

        assert len(best) == 1
        assert best[0].index == 0
        summary = table.summary
        assert (summary.loc[best[0].index, 'mean'] <= summary['mean']).all()

    def test_select_top_k(self, table):
        assert [g.index for g in select_best(table, k=2)] == [0, 1]
        assert [g.index for g in select_best(table, k=10)] == [0, 1, 3, 2]

    def test_invalid_k(self, table):
        with pytest.raises(ValueError):
            select_best(table, k=0)

    def test_one_std_err_rule(self, table):
        """Within one standard error of the best, the simplest model wins."""
        best = select_best(table, one_std_err=True)
        assert best[0].index == 3

        ranked = rank_grid_points(table, one_std_err=True)
        assert list(ranked.index) == [3, 1, 0, 2]

    def test_ties_go_to_simpler_model(self):
        """Equal means are broken by higher cost_complexity, then higher min_n."""
        table = make_table(small_grid(), {i: [5.0, 5.0] for i in range(4)})

        assert list(rank_grid_points(table).index) == [3, 2, 1, 0]

    def test_maximized_metric(self):
        """For rsq the highest mean wins."""
        table = make_table(small_grid(), {
            0: [0.5, 0.5], 1: [0.7, 0.7], 2: [0.6, 0.6], 3: [0.1, 0.1],
        }, metric="rsq")

        assert select_best(table)[0].index == 1

    def test_selection_order_invariant(self, table):
        """Selection does not depend on the order results were recorded in."""
        results = [
            FitResult(int(row.grid_index), row.resample_id, row.value)
            for row in table.results.itertuples()
        ]
        reversed_table = TuningTable(table.grid, table.metric, results[::-1], table.resample_ids)

        assert select_best(reversed_table, k=4) == select_best(table, k=4)
        assert select_best(reversed_table, one_std_err=True) == select_best(table, one_std_err=True)

    def test_excluded_points_skipped(self):
        """Excluded grid points are never selected."""
        table = make_table(
            small_grid(),
            {0: [1.0, 1.0], 1: [2.0, 2.0], 2: [3.0, 3.0], 3: [4.0, 4.0]},
            errors_by_index={0: "RuntimeError: failed"},
        )

        assert select_best(table)[0].index == 1
        assert 0 not in rank_grid_points(table).index

    def test_empty_table(self):
        """Selecting from a table with no valid grid point is an error."""
        table = make_table(
            small_grid(),
            {i: [1.0] for i in range(4)},
            errors_by_index={i: "RuntimeError: failed" for i in range(4)},
        )

        with pytest.raises(EmptyTuningTableError):
            select_best(table)

    def test_show_best(self, table):
        top = show_best(table, n=2)

        assert len(top) == 2
        assert list(top.index) == [0, 1]
        assert {'mean', 'std_err', 'n', 'config_id'} <= set(top.columns)

    def test_rank_summary_matches_table(self, table):
        """Ranking a bare summary frame gives the same order as ranking the table."""
        simpler = {'cost_complexity': 'higher', 'min_n': 'higher'}

        for one_std_err in (False, True):
            ranked = rank_summary(table.summary, "rmse", simpler, one_std_err=one_std_err)
            expected = rank_grid_points(table, one_std_err=one_std_err)
            assert list(ranked.index) == list(expected.index)


class TestGridTuner:
    """Test parallel grid search."""

    @pytest.fixture
    def train(self):
        dataset = Dataset(generate_survey_data(n_samples=80, random_state=11), EXAMPLE_SCHEMA)
        return initial_split(dataset, prop=0.75, strata=EXAMPLE_OUTCOME, seed=3).train

    @pytest.fixture
    def resamples(self, train):
        return bootstraps(train, times=5, strata=EXAMPLE_OUTCOME, seed=3)

    def test_every_pair_evaluated(self, train, resamples):
        """Each (grid point, resample) pair has one result."""
        grid = small_grid()
        tuner = GridTuner(EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, n_jobs=1)

        table = tuner.tune(train, resamples, grid)

        assert tuner.table is table
        assert table.n_results == len(grid) * len(resamples)
        assert len(table.summary) == len(grid)
        assert ((table.summary['n'] + table.summary['n_failed']) == len(resamples)).all()
        assert set(table.results['resample_id']) == set(resamples.ids)

    def test_parallel_matches_sequential(self, train, resamples):
        """Worker count does not change the results."""
        grid = small_grid()

        sequential = GridTuner(EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, n_jobs=1).tune(
            train, resamples, grid
        )
        parallel = GridTuner(EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, n_jobs=2).tune(
            train, resamples, grid
        )

        pd.testing.assert_frame_equal(sequential.summary, parallel.summary)

    def test_failed_fits_recorded(self, train, resamples, caplog):
        """Fits that raise are recorded as missing and their grid points excluded."""
        grid = small_grid()
        tuner = GridTuner(
            EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, model_class=FailingForLargeNodes, n_jobs=1
        )

        with caplog.at_level(logging.WARNING, logger="surveytree"):
            table = tuner.tune(train, resamples, grid)

        assert set(table.failures) == {1, 3}
        assert "node threshold too large" in str(table.failures[1])
        assert table.results['error'].notna().sum() == 2 * len(resamples)
        assert "Excluding Model02" in caplog.text
        assert select_best(table)[0].index in (0, 2)

    def test_degenerate_trees_rejected(self, train, resamples):
        """With reject_degenerate, trees pruned to a single leaf are failures."""
        parameters = parameters_from_config({
            'cost_complexity': {'range': [1, 2], 'transform': 'log10'},
            'min_n': {'range': [2, 10], 'transform': 'identity'},
        })
        grid = regular_grid(parameters, levels=2)
        tuner = GridTuner(
            EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS,
            model_kwargs={'reject_degenerate': True}, n_jobs=1,
        )

        table = tuner.tune(train, resamples, grid)

        assert set(table.failures) == {0, 1, 2, 3}
        assert "DegenerateTreeError" in str(table.failures[0])
        with pytest.raises(EmptyTuningTableError):
            select_best(table)

    def test_resample_mismatch(self, train, resamples):
        """Resamples drawn from another subset are rejected."""
        tuner = GridTuner(EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS)

        with pytest.raises(ValueError):
            tuner.tune(train.subset(range(10)), resamples, small_grid())

    def test_unknown_metric(self):
        with pytest.raises(ValueError):
            GridTuner(EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, metric="accuracy")


class TestTuningCache:
    """Test the on-disk tuning cache."""

    @pytest.fixture
    def temp_dir(self):
        temp_dir = tempfile.mkdtemp()
        yield Path(temp_dir)
        shutil.rmtree(temp_dir)

    def key(self, **overrides):
        params = dict(
            dataset_fingerprint="abc",
            split_config={'prop': 0.75, 'strata': EXAMPLE_OUTCOME, 'strata_bins': 4},
            grid_definition=small_grid().definition(),
            times=5,
            seed=1,
            metric="rmse",
            outcome=EXAMPLE_OUTCOME,
            predictors=EXAMPLE_PREDICTORS,
        )
        params.update(overrides)
        return tuning_cache_key(**params)

    def test_key_stable_and_sensitive(self):
        assert self.key() == self.key()
        assert self.key() != self.key(seed=2)
        assert self.key() != self.key(times=6)
        assert self.key() != self.key(grid_definition=regular_grid(levels=3).definition())

    def test_put_get(self, temp_dir):
        """A stored table comes back intact, failures included."""
        cache = TuningCache(temp_dir / "cache")
        table = make_table(
            small_grid(),
            {i: [1.0, 2.0] for i in range(4)},
            errors_by_index={2: "RuntimeError: failed"},
        )
        key = self.key()

        assert cache.get(key) is None
        assert key not in cache

        cache.put(key, table)
        cached = cache.get(key)

        assert key in cache
        pd.testing.assert_frame_equal(cached.summary, table.summary)
        assert isinstance(cached.failures[2], InsufficientDataError)
        assert cached.failures[2].config_id == "Model03"

        assert cache.clear() == 1
        assert key not in cache


class TestEndToEnd:
    """Small end-to-end tuning run."""

    def test_tune_select_refit(self):
        """60 training records, 20 bootstraps and a 4 x 4 grid select one model."""
        train = Dataset(generate_survey_data(n_samples=60, random_state=5), EXAMPLE_SCHEMA)
        resamples = bootstraps(train, times=20, strata=EXAMPLE_OUTCOME, seed=5)
        grid = regular_grid(levels=4)

        table = GridTuner(EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS, n_jobs=1).tune(
            train, resamples, grid
        )
        summary = table.summary

        assert len(summary) == 16
        assert (summary['n'] <= 20).all()
        assert ((summary['n'] + summary['n_failed']) == 20).all()

        best = select_best(table, k=1)
        assert len(best) == 1
        assert best[0] in list(grid)

        final = fit_final(train, best[0], EXAMPLE_OUTCOME, EXAMPLE_PREDICTORS)
        assert final.diagnostics['n_train'] == 60
        assert final.diagnostics['rmse'] >= 0
