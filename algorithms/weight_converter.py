class WeightConverter:
    """Utility for converting between kg and lbs."""

    KG_TO_LB = 2.20462
    LB_TO_KG = 0.453592
    UNITS = ("kg", "lbs")

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.KG_TO_LB, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb * WeightConverter.LB_TO_KG, 2)

    @classmethod
    def convert(cls, weight: float, from_unit: str, to_unit: str) -> float:
        if from_unit not in cls.UNITS or to_unit not in cls.UNITS:
            raise ValueError(f"units must be one of {cls.UNITS}")
        if from_unit == to_unit:
            return weight
        if from_unit == "lbs":
            return cls.lb_to_kg(weight)
        return cls.kg_to_lb(weight)
