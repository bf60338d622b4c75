"""
Configuration management for ScanGuard.

- **app_configuration.py**: File-locked YAML loader for global settings
  (``config/app_config.yml``). Falls back to defaults on a missing or malformed
  file and warns when the review threshold is not below the detection threshold.

- **detection_settings.py**: Typed wrappers for the ``detection`` and
  ``escalation`` sections. Classifier credentials are read from the environment.
"""
