"""Prometheus metrics for Product Scout."""

from prometheus_client import Counter, Histogram, Info

app_info = Info("product_scout", "Product Scout application info")
app_info.info({"version": "0.1.0", "name": "product-scout"})

# Pipeline metrics
pipeline_phase_duration_seconds = Histogram(
    "pipeline_phase_duration_seconds",
    "Time spent in each pipeline phase",
    ["phase"],
    buckets=[0.1, 1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
)

products_collected_total = Counter(
    "products_collected_total",
    "Total number of product rows collected from discovery sources",
    ["source"],
)

source_failures_total = Counter(
    "source_failures_total",
    "Total number of failed collection or enrichment calls",
    ["stage", "source"],
)

# Scrape queue metrics
queue_entries_enqueued_total = Counter(
    "scrape_queue_entries_enqueued_total",
    "Total number of scrape queue entries inserted by a rebuild",
    ["priority"],
)

queue_transitions_total = Counter(
    "scrape_queue_transitions_total",
    "Total number of scrape queue state transitions",
    ["status"],
)

# Scoring metrics
candidates_scored_total = Counter(
    "candidates_scored_total",
    "Total number of candidates scored",
)

candidate_score = Histogram(
    "candidate_score",
    "Distribution of candidate scores per profile",
    ["profile"],
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)

# Sync metrics
candidates_synced_total = Counter(
    "candidates_synced_total",
    "Total number of candidate sync attempts to Notion",
    ["status"],
)
