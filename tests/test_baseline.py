"""Unit tests for the trimmed-mean baseline estimator."""

import pytest

from spike_detector.baseline import estimate_baseline, trimmed_subset


def test_identical_values_give_exact_baseline():
    estimate = estimate_baseline([37] * 15)

    assert estimate.trimmed_mean == 37
    assert estimate.trimmed_jitter == 0
    assert estimate.baseline == 37


def test_outlier_is_trimmed_away():
    samples = [10] * 14 + [200]
    estimate = estimate_baseline(samples)

    # 15 samples -> two dropped from each end, so the 200 never counts
    assert estimate.trimmed_count == 4
    assert estimate.trimmed_mean == pytest.approx(10.0)
    assert estimate.trimmed_jitter == pytest.approx(0.0)
    assert estimate.baseline == pytest.approx(10.0)


def test_small_samples_are_not_trimmed():
    assert trimmed_subset([5, 1, 100, 3]) == [1, 3, 5, 100]

    estimate = estimate_baseline([1, 3, 5, 100])
    assert estimate.trimmed_count == 0
    assert estimate.trimmed_mean == pytest.approx(27.25)


def test_trim_keeps_closed_middle_range():
    samples = list(range(1, 21))  # floor(20 * 0.15) = 3 dropped per side
    assert trimmed_subset(samples) == list(range(4, 18))


def test_trimmed_jitter_uses_the_trimmed_subset():
    samples = [1, 2, 10, 10, 12, 12, 14, 14, 100, 200]  # one trimmed per side
    estimate = estimate_baseline(samples)

    subset = [2, 10, 10, 12, 12, 14, 14, 100]
    mean = sum(subset) / len(subset)
    expected_jitter = (sum((x - mean) ** 2 for x in subset) / len(subset)) ** 0.5

    assert estimate.trimmed_mean == pytest.approx(mean)
    assert estimate.trimmed_jitter == pytest.approx(expected_jitter)
    assert estimate.baseline == pytest.approx(mean + expected_jitter)


def test_single_sample_baseline_has_zero_jitter():
    estimate = estimate_baseline([15])
    assert estimate.trimmed_jitter == 0.0
    assert estimate.baseline == 15


def test_unsorted_input_is_not_mutated():
    samples = [30, 10, 20, 50, 40]
    estimate_baseline(samples)
    assert samples == [30, 10, 20, 50, 40]


def test_empty_input_is_rejected():
    with pytest.raises(ValueError):
        estimate_baseline([])
