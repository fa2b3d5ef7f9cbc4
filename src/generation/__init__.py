"""
Generation package: Gemini client, prompt templates, audit log and the
request orchestration service.
"""
