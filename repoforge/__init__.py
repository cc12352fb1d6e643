"""repoforge: AI multi-file job orchestration over GitHub repositories."""
