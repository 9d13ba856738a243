from occupancy_engine.interfaces.estimator import OccupancyEstimator, PredictionKind

__all__ = ["OccupancyEstimator", "PredictionKind"]
