from occupancy_engine.estimation.single_season import SingleSeasonEstimator

__all__ = ["SingleSeasonEstimator"]
