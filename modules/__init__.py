"""
Engine components, grouped by stage:
    - detection: landmark geometry and the MediaPipe landmark source
    - recognition: pose history, heuristic detectors, fusion
    - control: emission cooldown
    - intelligence: calibration sessions and sample storage
    - storage: model persistence
    - utils: configuration and logging
"""
