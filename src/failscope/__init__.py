"""failscope — кластеризация упавших тестов оценки промптов по причине падения."""

__version__ = "0.1.0"
