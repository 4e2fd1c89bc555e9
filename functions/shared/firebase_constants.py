# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================

# Firestore collection names and document field keys shared by the relay.

UPLOADS_COLLECTION = "uploads"
USERS_COLLECTION = "users"

# Upload record document keys (camelCase, as read by the mobile client).
OWNER_ID_FIELD = "ownerId"
OBJECT_ID_FIELD = "objectId"
OBJECT_URL_FIELD = "objectUrl"
FILE_NAME_FIELD = "fileName"
MIME_TYPE_FIELD = "mimeType"
UPLOADED_AT_FIELD = "uploadedAt"

# User profile document keys.
CREATED_AT_FIELD = "createdAt"
