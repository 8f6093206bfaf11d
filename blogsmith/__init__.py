"""
Blogsmith - Case-Study Blog Generation with Quality Gates

This package implements a LangGraph-based pipeline that turns a topic into a
publishable technical blog post and refuses to publish anything that fails
its quality gate.

Main components:
- models: Pydantic schemas for the generation record and quality reports
- tools: Source (dead-link) validation and inline citation analysis
- quality: Text metrics and the five-dimension quality scorer
- agents: Prompt templates and LLM-backed external collaborators
- workflow: LangGraph stages, orchestrator and batch driver
- utils: Configuration, retries, tracing, caching and file output
"""

__version__ = "1.0.0"
__author__ = "Blogsmith"
