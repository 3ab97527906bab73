"""The Signeo tool set: login plus the taxonomy management tools."""

from __future__ import annotations

from pydantic import BaseModel, Field

from signeo_mcp.server.registry import ToolRegistry
from signeo_mcp.server.tools import ToolContext, ToolDescriptor
from signeo_mcp.signeo.client import SigneoClient
from signeo_mcp.types import CallToolResult, TextContent

LOGIN = "login"
CREATE_TAXONOMY_ENTITY_TYPE = "create-taxonomy-entity-type"
GET_TAXONOMY_TREE = "get-taxonomy-tree"
SET_ENTITY_PROPERTIES = "set-entity-properties"
CREATE_TAXONOMY_NODE = "create-taxonomy-node"


class LoginArguments(BaseModel):
    username: str = Field(description="User name")
    password: str = Field(description="User password")


class AuthenticatedArguments(BaseModel):
    SIGSID: str | None = Field(
        default=None,
        description="Authentication cookie (SIGSID); only used when no login has been performed",
    )
    tpc: str = Field(description="TPC token")


class CreateTaxonomyEntityTypeArguments(AuthenticatedArguments):
    name: str = Field(description="Entity type name")
    id: str = Field(description="Entity type ID")


class GetTaxonomyTreeArguments(AuthenticatedArguments):
    entity_type_var: str = Field(description="Taxonomy entity type (e.g. tax_catalogue, product_categories, etc.)")


class SetEntityPropertiesArguments(AuthenticatedArguments):
    id: str = Field(description="Entity type ID")
    name: str = Field(description="Entity type name")
    entity_type_var: str = Field(description="Entity type variable (e.g. tax_catalogue)")


class CreateTaxonomyNodeArguments(AuthenticatedArguments):
    entity_type_var: str = Field(description="The taxonomy entity type (e.g., tax_catalogue)")
    node_type_var: str = Field(description="Node type variable (e.g., tax_catalogue333)")
    parent: str = Field(description="Parent node variable name (e.g., tax_catalogue)")
    lang_id: str | int = Field(description="Language ID (e.g., 1 for Hebrew)")
    title: str = Field(description="Node title (in UTF-8 or native language)")
    uri: str = Field(default="", description="Optional URI slug for the node")
    entity_tree_parent: str = Field(default="", description="Parent node ID if relevant (default empty)")


def _text(*texts: str) -> CallToolResult:
    return CallToolResult(content=[TextContent(text=text) for text in texts])


def _credential(arguments: AuthenticatedArguments, context: ToolContext) -> str | None:
    # A token obtained through the login tool wins over one passed by the client.
    return context.credential or arguments.SIGSID


def build_signeo_tools(client: SigneoClient, registry: ToolRegistry | None = None) -> list[ToolDescriptor]:
    """Create the Signeo tool descriptors.

    Descriptions are looked up in ``registry`` when given, falling back to the
    built-in defaults.
    """
    provider = registry.describe if registry is not None else None

    async def login(arguments: LoginArguments, context: ToolContext) -> CallToolResult:
        session_id = await client.login(arguments.username, arguments.password)
        result = _text("Login successful.", f"Session ID: {session_id}")
        result.structuredContent = {"session_id": session_id}
        return result

    async def create_taxonomy_entity_type(
        arguments: CreateTaxonomyEntityTypeArguments, context: ToolContext
    ) -> CallToolResult:
        body = await client.create_entity_type(
            _credential(arguments, context), tpc=arguments.tpc, name=arguments.name, id=arguments.id
        )
        return _text(f"Entity type created successfully.\n\n{body}")

    async def get_taxonomy_tree(arguments: GetTaxonomyTreeArguments, context: ToolContext) -> CallToolResult:
        body = await client.get_taxonomy_tree(
            _credential(arguments, context), tpc=arguments.tpc, entity_type_var=arguments.entity_type_var
        )
        return _text(f'Successfully fetched taxonomy tree for "{arguments.entity_type_var}":\n\n{body}')

    async def set_entity_properties(arguments: SetEntityPropertiesArguments, context: ToolContext) -> CallToolResult:
        body = await client.set_entity_properties(
            _credential(arguments, context),
            tpc=arguments.tpc,
            id=arguments.id,
            name=arguments.name,
            entity_type_var=arguments.entity_type_var,
        )
        return _text(f"Entity properties updated successfully:\n\n{body}")

    async def create_taxonomy_node(arguments: CreateTaxonomyNodeArguments, context: ToolContext) -> CallToolResult:
        body = await client.create_taxonomy_node(
            _credential(arguments, context),
            tpc=arguments.tpc,
            entity_type_var=arguments.entity_type_var,
            node_type_var=arguments.node_type_var,
            parent=arguments.parent,
            lang_id=str(arguments.lang_id),
            title=arguments.title,
            uri=arguments.uri,
            entity_tree_parent=arguments.entity_tree_parent,
        )
        return _text(f"Taxonomy node created successfully:\n\n{body}")

    return [
        ToolDescriptor(
            name=LOGIN,
            arguments_model=LoginArguments,
            default_description="Authenticate and save SIGSID session",
            handler=login,
            description_provider=provider,
            issues_credential=True,
        ),
        ToolDescriptor(
            name=CREATE_TAXONOMY_ENTITY_TYPE,
            arguments_model=CreateTaxonomyEntityTypeArguments,
            default_description="Create a new taxonomy entity type",
            handler=create_taxonomy_entity_type,
            description_provider=provider,
        ),
        ToolDescriptor(
            name=GET_TAXONOMY_TREE,
            arguments_model=GetTaxonomyTreeArguments,
            default_description="Get taxonomy tree for a specific entity type",
            handler=get_taxonomy_tree,
            description_provider=provider,
        ),
        ToolDescriptor(
            name=SET_ENTITY_PROPERTIES,
            arguments_model=SetEntityPropertiesArguments,
            default_description="Set entity type properties for taxonomy/catalogue",
            handler=set_entity_properties,
            description_provider=provider,
        ),
        ToolDescriptor(
            name=CREATE_TAXONOMY_NODE,
            arguments_model=CreateTaxonomyNodeArguments,
            default_description="Create a new taxonomy node in a specified entity type",
            handler=create_taxonomy_node,
            description_provider=provider,
        ),
    ]
