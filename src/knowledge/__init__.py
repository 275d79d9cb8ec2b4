"""
Knowledge Module
================

Document-grounded question answering: chunking, embeddings, semantic and
keyword retrieval, answer composition and QA history.
"""
