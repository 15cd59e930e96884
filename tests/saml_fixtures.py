"""
Shared XML documents for the test suite.
"""

EPTID_NAME = 'urn:oid:1.3.6.1.4.1.5923.1.1.1.10'
MAIL_NAME = 'urn:oid:0.9.2342.19200300.100.1.3'
PERSISTENT = 'urn:oasis:names:tc:SAML:2.0:nameid-format:persistent'
IDP_ENTITY_ID = 'https://idp.example.org/idp/shibboleth'
SP_ENTITY_ID = 'https://sp.example.org/shibboleth'

ASSERTION_XML = f"""<?xml version="1.0" encoding="UTF-8"?>
<saml2:Assertion xmlns:saml2="urn:oasis:names:tc:SAML:2.0:assertion"
                 xmlns:xsi="http://www.w3.org/2001/XMLSchema-instance"
                 xmlns:xs="http://www.w3.org/2001/XMLSchema"
                 ID="_3c39bc0fe7b13769cab2f6f45eba801b" IssueInstant="2024-05-02T09:30:00Z" Version="2.0">
  <saml2:Issuer>{IDP_ENTITY_ID}</saml2:Issuer>
  <saml2:Subject>
    <saml2:NameID Format="urn:oasis:names:tc:SAML:2.0:nameid-format:transient">_b4e1c2</saml2:NameID>
  </saml2:Subject>
  <saml2:AttributeStatement>
    <saml2:Attribute FriendlyName="eduPersonTargetedID" Name="{EPTID_NAME}"
                     NameFormat="urn:oasis:names:tc:SAML:2.0:attrname-format:uri">
      <saml2:AttributeValue>
        <saml2:NameID Format="{PERSISTENT}" NameQualifier="{IDP_ENTITY_ID}"
                      SPNameQualifier="{SP_ENTITY_ID}">YjdlM2Q4NzQ0ZmY0</saml2:NameID>
      </saml2:AttributeValue>
    </saml2:Attribute>
    <saml2:Attribute FriendlyName="mail" Name="{MAIL_NAME}"
                     NameFormat="urn:oasis:names:tc:SAML:2.0:attrname-format:uri">
      <saml2:AttributeValue xsi:type="xs:string">jdoe@example.org</saml2:AttributeValue>
    </saml2:Attribute>
  </saml2:AttributeStatement>
</saml2:Assertion>
"""

RESPONSE_XML = f"""<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol"
                xmlns:saml2="urn:oasis:names:tc:SAML:2.0:assertion"
                ID="_resp1" Version="2.0" IssueInstant="2024-05-02T09:30:00Z">
  <saml2:Issuer>{IDP_ENTITY_ID}</saml2:Issuer>
  <saml2:Assertion ID="_inner" Version="2.0" IssueInstant="2024-05-02T09:30:00Z">
    <saml2:Issuer>{IDP_ENTITY_ID}</saml2:Issuer>
    <saml2:AttributeStatement>
      <saml2:Attribute Name="{EPTID_NAME}">
        <saml2:AttributeValue>abc123</saml2:AttributeValue>
      </saml2:Attribute>
    </saml2:AttributeStatement>
  </saml2:Assertion>
</samlp:Response>
"""

METADATA_XML = f"""<?xml version="1.0" encoding="UTF-8"?>
<md:EntityDescriptor xmlns:md="urn:oasis:names:tc:SAML:2.0:metadata" entityID="{SP_ENTITY_ID}">
  <md:SPSSODescriptor protocolSupportEnumeration="urn:oasis:names:tc:SAML:2.0:protocol">
    <md:NameIDFormat>urn:oasis:names:tc:SAML:2.0:nameid-format:persistent</md:NameIDFormat>
    <md:AssertionConsumerService Binding="urn:oasis:names:tc:SAML:2.0:bindings:HTTP-POST"
                                 Location="https://sp.example.org/Shibboleth.sso/SAML2/POST" index="1"/>
    <md:AttributeConsumingService index="0" isDefault="true">
      <md:ServiceName xml:lang="en">Example Service</md:ServiceName>
      <md:RequestedAttribute FriendlyName="mail" Name="{MAIL_NAME}"
                             NameFormat="urn:oasis:names:tc:SAML:2.0:attrname-format:uri" isRequired="true"/>
    </md:AttributeConsumingService>
  </md:SPSSODescriptor>
</md:EntityDescriptor>
"""
