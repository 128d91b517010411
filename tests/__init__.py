"""
Test Suite for REST API Summarizer
==================================

Test Structure:
    - test_parameters.py / test_scanners.py / test_spec_scanner.py: Extraction
    - test_reader.py: Source readers and the polyglot scan
    - test_normalizer.py: Grouping and merging into Endpoints
    - test_cache_manager.py: Cache system tests
    - test_summary_agent.py: Prompting, answer cleaning and backend errors
    - test_config.py: Configuration and API key storage
    - test_dispatcher.py: Concurrency, retry and timeout behaviour
    - test_pipeline.py / test_cli.py: End-to-end runs with the mock backend
"""

__version__ = "1.0.1"
