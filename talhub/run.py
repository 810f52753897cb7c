#!/usr/bin/env python3
"""
Quick runner for TAL Hub
========================

Usage:
    python -m talhub.run
"""

import uvicorn

if __name__ == "__main__":
    print("Starting TAL Hub...")
    print("API docs: http://localhost:8000/docs")
    print("Health:   http://localhost:8000/health")
    print()

    uvicorn.run(
        "talhub.api:app",
        host="0.0.0.0",
        port=8000,
        reload=True
    )
