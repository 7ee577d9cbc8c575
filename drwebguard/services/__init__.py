"""Result consumers: Elasticsearch storage and Malice webhook delivery."""
