"""Hybrid product/post/user search with an Elasticsearch index and MongoDB fallback."""
