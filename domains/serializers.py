from rest_framework import serializers

from scanner.config import AnalysisConfig
from scanner.exceptions import InvalidAnalysisConfig
from .models import Domain


class DomainScheduleSerializer(serializers.ModelSerializer):
	class Meta:
		model = Domain
		fields = ["auto_analysis_enabled", "analysis_frequency", "analysis_config"]

	def validate_analysis_config(self, v):
		if v in (None, ""):
			return {}
		if not isinstance(v, dict):
			raise serializers.ValidationError("Expected an object.")
		try:
			return AnalysisConfig.from_payload(v).to_dict()
		except InvalidAnalysisConfig as e:
			raise serializers.ValidationError(str(e))
