"""Cockpit widgets: pure derived-metric computations over pillar content."""
