"""
Switchyard - picks the best-fit model for a task and coordinates several
models through multi-step workflows.
"""
