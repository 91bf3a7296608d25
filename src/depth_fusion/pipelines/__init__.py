"""Kedro pipelines for depth estimation, object detection and fusion."""
