# /orderbot/utils/metrics.py

from prometheus_client import Counter, Histogram, Gauge

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Interaction Metrics
interaction_counter = Counter('interactions_total', 'Discord interactions handled', ['kind', 'outcome'])
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])

# Ledger Metrics
ledger_requests_counter = Counter('ledger_requests_total', 'Ledger API calls', ['action', 'status'])
ledger_latency_histogram = Histogram('ledger_request_seconds', 'Ledger API latency in seconds', ['action'])

# Discord Metrics
discord_requests_counter = Counter('discord_requests_total', 'Discord REST calls', ['operation', 'status'])

# Job Metrics
job_runs_counter = Counter('job_runs_total', 'Scheduled job runs', ['job', 'outcome'])
orders_posted_counter = Counter('orders_posted_total', 'Orders posted to the channel')
orders_removed_counter = Counter('orders_removed_total', 'Confirmed orders removed from the channel')

# Cache Metrics
cache_operations = Counter('cache_operations_total', 'Cache operations', ['operation', 'status'])
cached_orders_gauge = Gauge('cached_orders', 'Orders currently held in the local cache')
