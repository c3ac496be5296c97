# pylint: disable=missing-docstring
# pylint: disable=protected-access
# pylint: disable=attribute-defined-outside-init

import re

import pytest
from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from taskgate.metrics.metrics import CounterMetric, GaugeMetric, HistogramMetric
from taskgate.queue import Queue


class TestMetric:
    def setup_method(self):
        self.custom_registry = CollectorRegistry()

    def test_init_tracker_returns_collector(self):
        metric = CounterMetric(
            name="testmetric",
            description="empty description",
            labels={"A": "a"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        assert isinstance(metric.tracker, Counter)

    def test_fullname_is_prefixed(self):
        metric = CounterMetric(name="testmetric", description="empty description")
        assert metric.fullname == "taskgate_testmetric"

    def test_init_tracker_does_not_raise_if_initialized_twice(self):
        metric1 = CounterMetric(
            name="testmetric",
            description="empty description",
            labels={"A": "a"},
            registry=self.custom_registry,
        )
        metric2 = CounterMetric(
            name="testmetric",
            description="empty description",
            labels={"A": "a"},
            registry=self.custom_registry,
        )
        metric1.init_tracker()
        metric2.init_tracker()
        assert metric1.tracker == metric2.tracker

    def test_init_tracker_without_registry_creates_unregistered_tracker(self):
        metric1 = CounterMetric(name="testmetric", description="description", labels={"A": "a"})
        metric2 = CounterMetric(name="testmetric", description="description", labels={"A": "a"})
        metric1.init_tracker()
        metric2.init_tracker()
        assert metric1.tracker is not metric2.tracker

    def test_initialize_without_labels_raises(self):
        metric = CounterMetric(
            name="bla",
            description="empty description",
            registry=self.custom_registry,
        )
        with pytest.raises(ValueError, match="No label names were set when constructing"):
            metric.init_tracker()

    def test_labels_must_be_strings(self):
        with pytest.raises(TypeError):
            CounterMetric(name="bla", description="empty description", labels={"queue": 1})

    def test_counter_metric_increments_correctly(self):
        metric = CounterMetric(
            name="bla",
            description="empty description",
            labels={"queue": "1"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        metric += 1
        metric += 1
        metric_output = generate_latest(self.custom_registry).decode("utf-8")
        assert 'taskgate_bla_total{queue="1"} 2.0' in metric_output

    def test_same_counter_with_different_label_values_counts_on_different_tracker(self):
        metric1 = CounterMetric(
            name="bla",
            description="empty description",
            labels={"queue": "1"},
            registry=self.custom_registry,
        )
        metric2 = CounterMetric(
            name="bla",
            description="empty description",
            labels={"queue": "2"},
            registry=self.custom_registry,
        )
        metric1.init_tracker()
        metric2.init_tracker()
        metric1 += 1
        metric_output = generate_latest(self.custom_registry).decode("utf-8")
        assert len(re.findall(r'.*taskgate_bla_total\{queue="1"\} 1\.0.*', metric_output)) == 1
        assert len(re.findall(r'.*taskgate_bla_total\{queue="2"\} 0\.0.*', metric_output)) == 1

    def test_init_tracker_raises_on_try_to_overwrite_tracker_with_different_type(self):
        metric = CounterMetric(
            name="bla",
            description="empty description",
            labels={"queue": "1"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        with pytest.raises(ValueError, match="already exists with different type"):
            metric = HistogramMetric(
                name="bla",
                description="empty description",
                labels={"queue": "2"},
                registry=self.custom_registry,
            )
            metric.init_tracker()


class TestGaugeMetric:
    def setup_method(self):
        self.custom_registry = CollectorRegistry()

    def test_init_tracker_returns_collector(self):
        metric = GaugeMetric(
            name="testmetric",
            description="empty description",
            labels={"A": "a"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        assert isinstance(metric.tracker, Gauge)

    def test_gauge_metric_adding_sets_the_value(self):
        metric = GaugeMetric(
            name="bla",
            description="empty description",
            labels={"queue": "1"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        metric += 3
        metric += 1
        metric_output = generate_latest(self.custom_registry).decode("utf-8")
        assert 'taskgate_bla{queue="1"} 1.0' in metric_output


class TestHistogramMetric:
    def setup_method(self):
        self.custom_registry = CollectorRegistry()

    def test_init_tracker_returns_collector(self):
        metric = HistogramMetric(
            name="testmetric",
            description="empty description",
            labels={"A": "a"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        assert isinstance(metric.tracker, Histogram)

    def test_histogram_metric_observes_values(self):
        metric = HistogramMetric(
            name="bla",
            description="empty description",
            labels={"queue": "1"},
            registry=self.custom_registry,
        )
        metric.init_tracker()
        metric += 1
        metric_output = generate_latest(self.custom_registry).decode("utf-8")
        assert re.search(r'taskgate_bla_sum\{queue="1"\} 1\.0', metric_output)
        assert re.search(r'taskgate_bla_count\{queue="1"\} 1\.0', metric_output)


class TestQueueMetrics:
    def setup_method(self):
        self.custom_registry = CollectorRegistry()

    @pytest.mark.parametrize(
        "attribute, metric_type",
        [
            ("number_of_added_items", CounterMetric),
            ("number_of_processed_items", CounterMetric),
            ("number_of_failed_items", CounterMetric),
            ("number_of_dropped_items", CounterMetric),
            ("number_of_running_items", GaugeMetric),
            ("number_of_pending_items", GaugeMetric),
            ("processing_time_per_item", HistogramMetric),
        ],
    )
    def test_queue_metrics_are_initialized(self, attribute, metric_type):
        metrics = Queue.Metrics(labels={"queue": "q"}, registry=self.custom_registry)
        metric = getattr(metrics, attribute)
        assert isinstance(metric, metric_type)
        assert metric.labels == {"queue": "q"}
        assert metric.tracker is not None

    def test_queue_metrics_are_exposed(self):
        Queue(name="exposed", registry=self.custom_registry).add("item")
        metric_output = generate_latest(self.custom_registry).decode("utf-8")
        assert 'taskgate_number_of_added_items_total{queue="exposed"} 1.0' in metric_output
        assert 'taskgate_number_of_pending_items{queue="exposed"} 1.0' in metric_output
