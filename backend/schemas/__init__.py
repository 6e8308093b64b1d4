"""
Request body schemas (pydantic v2).

Routes validate JSON bodies with Model.model_validate(request.get_json())
and turn pydantic.ValidationError into a 400 INVALID_PARAMS envelope.
"""
