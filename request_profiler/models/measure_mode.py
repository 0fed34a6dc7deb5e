from enum import StrEnum


class MeasureMode(StrEnum):
    process_time = 'process_time'
    wall_time = 'wall_time'
    cpu_time = 'cpu_time'
    allocations = 'allocations'
    memory = 'memory'
    gc_runs = 'gc_runs'
    gc_time = 'gc_time'
