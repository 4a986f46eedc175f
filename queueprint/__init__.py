"""QueuePrint - shared-queue label print agent.

QueuePrint runs on the machines attached to label printers and watches a
shared ``print_jobs`` table. When a pending job appears, one agent claims it
with an atomic conditional update, downloads the label PDF and prints it.
Any number of agents can watch the same table; each job is printed once.

Usage:
    queueprint configure --agent-id packing-1 --printer Zebra_ZP450
    queueprint start
    queueprint status
    queueprint test-print

For systemd service installation:
    queueprint install-service
"""

__version__ = "0.1.0"
