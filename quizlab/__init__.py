"""
Assessment Execution Engine - quizlab Package

This package contains the core components for running quizzes and grading
learner code:
- models: Data structures for questions, answers, labs and results
- engine: Quiz state machine with immediate per-answer feedback
- grader: Per-question grading and quiz scoring
- sandbox: Secure, isolated code execution
- runner: Test suite execution and scoring
- feedback: Learner-facing explanations of failures
- codec: Versioned encoding and sealed content
"""

__version__ = "1.0.0"
