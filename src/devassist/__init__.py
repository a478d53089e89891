"""devassist: apply generated code and commands to a project, then repair what breaks."""

__version__ = "0.1.0"
