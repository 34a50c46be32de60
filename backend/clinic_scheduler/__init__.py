"""
Clinic Scheduler - движок расписания специалистов и очереди приёма
"""
