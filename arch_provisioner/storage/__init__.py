"""Block devices, partition planning, and the mount stack.

Main Components:
    - planner.plan_partitions(): Pure partition planning per layout variant
    - block: Partition table writes, formatting and subvolume creation
    - mount_stack.MountStack: LIFO ledger of mounts and swap activations
    - swap.SwapProvisioner: Swap file creation and activation on the stack
    - release.release_idempotent(): Shared "already absent is released" teardown
"""
